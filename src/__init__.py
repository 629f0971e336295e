"""Rehber MEBBIS transfer service.

Transfers completed school counseling sessions to the Ministry of
Education's MEBBIS system through a browser automation driver.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
