"""HTTP control and live-stream surface."""
