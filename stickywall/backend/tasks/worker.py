"""
Taskiq Worker Entry.

Importing this module yields a broker with every task registered:

    taskiq worker stickywall.backend.tasks.worker:broker
"""

from stickywall.backend.tasks.broker import get_broker
from stickywall.backend.tasks.scheduled import register_scheduled_tasks

broker = get_broker()
tasks = register_scheduled_tasks()
