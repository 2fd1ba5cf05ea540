"""
Club segment league backend.

Weekly Strava segment competitions: activity matching, webhook
reconciliation, batch fetches and leaderboards.
"""
