# pageview-analytics-engine - Services
# Pure analytics logic; no I/O, no logging
