"""
Public operations of the PDC lifecycle engine.
"""
from .bounce import compute_late_fee, get_replacement, register_replacement, replacement_chain
from .registry import (
    cheque_number_exists, distinct_bank_names, get_pdc, list_pdcs, register_pdc, register_pdcs,
)
from .reports import dashboard_summary, tenant_pdc_history
from .scheduler import run_scheduler
from .state_machine import transition


def transition_pdc(pdc_id, target_status, expected_version, fields=None, user=None):
    """Move a cheque to target_status. fields carries the transition's dates and reasons."""
    return transition(pdc_id, target_status, expected_version, context=fields, user=user)
