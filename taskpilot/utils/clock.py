from datetime import datetime


class SystemClock:
    """Wall clock in naive local time, the frame due dates are entered in."""

    def now(self):
        return datetime.now()
