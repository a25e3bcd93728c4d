# Services module

from waitline.services.wait_time import WaitTimePredictor
from waitline.services.table_allocator import TableAllocator, capacity_tier
from waitline.services.history_recorder import HistoryRecorder
from waitline.services.notification_dispatcher import NotificationDispatcher, NotificationIntent
from waitline.services.queue_ledger import QueueLedger, SeatOutcome, TableStatusChange
from waitline.services.no_show_sweep import NoShowSweeper, run_no_show_sweep
