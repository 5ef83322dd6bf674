"""LeaveDesk — leave requests, day accounting and balances."""
