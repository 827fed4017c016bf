"""Indicator, quantization and context-formatting helpers"""
from .indicators import IndicatorConfig, calculate_indicator_suite, compute_timeframe_indicators
from .quantizer import RoundingMode, quantize_to_step

__all__ = [
    "IndicatorConfig",
    "calculate_indicator_suite",
    "compute_timeframe_indicators",
    "RoundingMode",
    "quantize_to_step",
]
