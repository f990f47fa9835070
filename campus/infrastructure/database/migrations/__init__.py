# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant schema migrations package.

- runner: applies ordered revisions to one tenant schema
- guards: catalog checks that make each revision step re-runnable
- tenant: the revision modules themselves

Run ``python -m campus.infrastructure.database.migrations`` to bring
every tenant schema up to date.
"""
