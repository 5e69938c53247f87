"""
Book catalog HTTP service.

Modules:
• Configuration and logging (`settings`, `logger_setup`)
• Store clients and error taxonomy (`database`, `errors`)
• Search filter composition, statistics and CRUD over Elasticsearch (`queries`)
• Per-user recent activity in Redis (`activity_log`)
• FastAPI application and request monitoring (`main`, `middleware`)
"""
