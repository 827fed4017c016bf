"""Trading cycle and its scheduler"""
from .scheduler import CycleScheduler, SchedulerState
from .trading_cycle import CycleReport, TradingCycle

__all__ = ["CycleScheduler", "SchedulerState", "CycleReport", "TradingCycle"]
