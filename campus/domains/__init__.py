# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for Campus LMS.

Domains:
    auth: Token issuance, password hashing and account registration.
    tenancy: Tenant provisioning, schema migration and tenant info.
"""
