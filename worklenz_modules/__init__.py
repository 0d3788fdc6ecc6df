"""
Worklenz Modules.

I/O and transaction layer over the kernel and the engines:
- project: ORM models for teams, projects, tasks and work logs
- ratecard: rate card templates, project rate-card roles, member binding
- finance: task-cost listings, breakdowns and project costing policy
"""
