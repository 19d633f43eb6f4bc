"""
UserOperation Execution Layer

Provides the infrastructure for turning intents into confirmed ERC-4337
operations:
- build_call / build_batch: typed intents to an ordered OperationDraft
- SmartAccount / Signer: the counterfactual account and its owner key
- OperationAssembler: drafts to preview UserOperations
- UserOperationStateMachine: sign, submit and confirm exactly once

Usage:
    from smartwallet.core.execution import CallKind, build_batch, build_call

    draft = build_batch([
        build_call(CallKind.ERC20_TRANSFER, token_address=dai, to=recipient, amount="5"),
    ])

    machine = session.new_operation(draft, resolved)
    await machine.confirm()
    result = await machine.wait(timeout=120)
"""

from .account import LocalAccountSigner, Signer, SmartAccount
from .assembler import OperationAssembler, apply_safety_multipliers, build_query_operation
from .builder import (
    ZERO_ADDRESS,
    build_batch,
    build_call,
    encode_execute_call_data,
    format_units,
    parse_units,
    validate_address,
)
from .models import (
    DUMMY_SIGNATURE,
    CallKind,
    ContractCall,
    FeeData,
    OperationDraft,
    SubmissionResult,
    UserOperation,
    UserOpGasEstimate,
    UserOpReceipt,
)
from .state_machine import (
    InvalidTransitionError,
    OperationState,
    StateTransition,
    UserOperationStateMachine,
)

__all__ = [
    # Account
    "LocalAccountSigner",
    "Signer",
    "SmartAccount",
    # Assembly
    "OperationAssembler",
    "apply_safety_multipliers",
    "build_query_operation",
    # Builder
    "ZERO_ADDRESS",
    "build_batch",
    "build_call",
    "encode_execute_call_data",
    "format_units",
    "parse_units",
    "validate_address",
    # Models
    "DUMMY_SIGNATURE",
    "CallKind",
    "ContractCall",
    "FeeData",
    "OperationDraft",
    "SubmissionResult",
    "UserOperation",
    "UserOpGasEstimate",
    "UserOpReceipt",
    # State machine
    "InvalidTransitionError",
    "OperationState",
    "StateTransition",
    "UserOperationStateMachine",
]
