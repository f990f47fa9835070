"""Campus LMS backend.

Multi-tenant learning management core: every institution gets its own
PostgreSQL schema, provisioned at registration and routed per request.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
