# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer.

This package contains:
- Database connections and ORM models (school database)
- In-memory event bus for transfer progress
- Background maintenance scheduling
"""
