"""Culture planner: dilution recipes, logistic harvest prediction and a lab timeline."""

__version__ = "0.1.0"
