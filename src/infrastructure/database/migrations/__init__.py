# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Alembic migrations for the school database.

Only the MEBBIS transfer bookkeeping columns are managed here; the
remaining school tables are owned by the counseling application.
"""
