# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Deadline-governed boot phase script runner."""

__version__ = "0.1.0"
