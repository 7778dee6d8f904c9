"""
taskrelay - Cross-process periodic task coordination over a shared store.

Workers in any number of processes poll a shared ``relay_tasks`` table,
claim a task with a conditional update, run it, and hand the ticket back
while rescheduling.
"""

__version__ = "0.1.0"

from taskrelay.core import *  # noqa
