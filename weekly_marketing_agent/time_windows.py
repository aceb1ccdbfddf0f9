from __future__ import annotations

from datetime import date, timedelta

from weekly_marketing_agent.models import DateWindow


def compute_windows(run_date: date | None = None, lag_days: int = 1) -> dict[str, DateWindow]:
    """Build the trailing 7-day window and the 7 days before it.

    ``lag_days`` is how many days before ``run_date`` the current window ends;
    1 means "up to yesterday". Vendors with reporting delay (Search Console)
    pass a larger lag.
    """
    run_date = run_date or date.today()
    lag = max(0, int(lag_days))

    current_end = run_date - timedelta(days=lag)
    current_start = current_end - timedelta(days=6)
    previous_end = current_start - timedelta(days=1)
    previous_start = previous_end - timedelta(days=6)

    return {
        "current": DateWindow("This week", current_start, current_end),
        "previous": DateWindow("Last week", previous_start, previous_end),
    }
