#!/usr/bin/env python3
"""Run the metrics bridge from a source checkout."""
from metricsbridge.main import main

if __name__ == "__main__":
    main()
