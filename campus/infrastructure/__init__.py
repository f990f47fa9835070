# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer.

This package contains the PostgreSQL registry connection, the per-tenant
connection pool cache, ORM models, tenant schema revisions and seeds.
"""
