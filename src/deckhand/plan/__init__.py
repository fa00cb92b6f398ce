# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/plan/__init__.py

from .plan import Operation, OperationStatus, OperationType, Phase, PhaseType, Plan
from .report import Report

__all__ = ["Operation", "OperationStatus", "OperationType", "Phase", "PhaseType", "Plan", "Report"]
