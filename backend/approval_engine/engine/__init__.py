"""Approval Engine - Rule evaluation, consensus and authorization"""
from .rule_evaluator import RuleEvaluator
from .approval_state_machine import ApprovalStateMachine, VoteOutcome
from .permission_guard import PermissionGuard

__all__ = [
    "RuleEvaluator",
    "ApprovalStateMachine",
    "VoteOutcome",
    "PermissionGuard",
]
