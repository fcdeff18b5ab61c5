"""
Dispense Calculator Pipeline Package

Contains the prescription calculation pipeline and its request/response
boundary.
"""

from .orchestrator import PIPELINE_STEPS, PrescriptionCalculator, calculate_prescription
from .request_handler import handle_calculate_request, health_check

__all__ = [
    'PIPELINE_STEPS',
    'PrescriptionCalculator',
    'calculate_prescription',
    'handle_calculate_request',
    'health_check',
]
