"""CloudWatch Logs Insights interface: query engine, Supabase store, REST API and MCP tools."""

MCP_SERVER_VERSION = '0.1.0'
