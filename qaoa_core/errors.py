"""
Exception taxonomy for the QAOA core pipeline.

All recoverable failures raised by the encoder, circuit builder, backends and
optimizer derive from ``QaoaCoreError``. ``QaoaSolver.solve`` is the boundary
that converts them into an error ``SolveResult``; everything below it raises.

Hierarchy:

    QaoaCoreError
    ├── EncodingError              malformed problem, QUBO or circuit topology
    └── QuantumError               failures while building or executing circuits
        ├── CapacityExceeded       too many qubits for the backend
        ├── UnsupportedGate        gate kind outside the backend's gate set
        ├── InvalidArgument        bad shots, angles, qubit operands, parameters
        └── BackendExecutionError  unexpected failure inside a backend
"""

from typing import Any, Optional


class QaoaCoreError(Exception):
    """
    Base exception for all QAOA core errors.

    Attributes:
        partial_trace: Optimization trace collected before the failure, when the
            error escaped from a running optimization (``None`` otherwise)
    """

    def __init__(self, message: str, partial_trace: Optional[Any] = None):
        super().__init__(message)
        self.partial_trace = partial_trace

    @property
    def category(self) -> str:
        """Short category label used in logs and result dictionaries."""
        return self.__class__.__name__


class EncodingError(QaoaCoreError):
    """Raised when a problem cannot be encoded or a QUBO/Hamiltonian is malformed."""
    pass


class QuantumError(QaoaCoreError):
    """Base exception for circuit construction and execution failures."""
    pass


class CapacityExceeded(QuantumError):
    """Raised when a circuit needs more qubits than the backend can hold."""
    pass


class UnsupportedGate(QuantumError):
    """Raised when a gate is not in the backend's supported gate set."""
    pass


class InvalidArgument(QuantumError):
    """Raised for invalid shot counts, angles, qubit operands or parameter vectors."""
    pass


class BackendExecutionError(QuantumError):
    """Raised when a backend fails for a reason outside the typed categories."""
    pass
