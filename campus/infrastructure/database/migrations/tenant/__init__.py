# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant schema revisions.

Contains revisions for per-tenant tables:
- Profiles (students, teachers) and tenant-local roles
- Courses, enrollments, lectures
- Assignments, quizzes and their submissions
- Grades, notifications and file metadata
- Campus branches
"""
