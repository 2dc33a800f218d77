"""
parkrun result notifier: incremental results scrape and subscriber notification.
"""
