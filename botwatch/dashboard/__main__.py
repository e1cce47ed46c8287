"""Run the dashboard: python -m botwatch.dashboard [config.json]"""

from botwatch.dashboard.server import main

if __name__ == "__main__":
    main()
