from . import admin, change_requests, deployments, payments, students, submissions, webhooks

__all__ = ["admin", "change_requests", "deployments", "payments", "students", "submissions", "webhooks"]
