"""CloudWatch Logs Insights query execution."""
