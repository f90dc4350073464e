from .broker import SimulatedBroker, load_bars_csv

__all__ = ["SimulatedBroker", "load_bars_csv"]
