"""AI ROI tracker backend: time-and-motion studies, ROI metrics and the analytics assistant."""
