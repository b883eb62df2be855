# pageview-analytics-engine - Components
# Composed pipelines over the core services
