"""
QUBO Encoder: constrained discrete problems to penalty-form QUBO.

This module turns a declarative problem description (variables, objective
terms and constraints) into a ``QuboModel`` whose minimum corresponds to the
best feasible assignment, plus the bookkeeping needed to decode measured
bitstrings back into domain values.

Encoding Rules
--------------
1. **Binary variables** map 1:1 to qubits.

2. **Integer and categorical variables** are one-hot encoded by default: each
   option gets its own qubit and the group carries the penalty

       λ (Σ x_i − 1)²  =  λ − λ Σ x_i + 2λ Σ_{i<j} x_i x_j

   i.e. ``−λ`` on every diagonal entry, ``+2λ`` on every pair inside the group
   and ``+λ`` added to the QUBO offset.

   Two denser encodings can be chosen per variable:

   - ``DOMAIN_WALL`` for ordered options: n options use n − 1 qubits and
     option k is the pattern of k ones followed by zeros. Each ascent
     ``0 → 1`` costs ``λ x_{i+1} (1 − x_i)``.
   - ``LOGARITHMIC`` for integer ranges: ``value = low + Σ w_i x_i`` with
     weights 1, 2, 4, ... and the last weight capped so every bit pattern is
     inside the range. No penalty is needed.

3. **Equality constraints** ``Σ c·ℓ = b`` become ``λ (Σ c·ℓ − b)²``.

4. **Inequality constraints** ``Σ c·ℓ ≤ b`` get a bounded binary slack
   register ``s ∈ [0, b − min(Σ c·ℓ)]`` and the equality penalty
   ``λ (Σ c·ℓ + s − b)²``. ``≥`` constraints are negated into ``≤``. Slack
   qubits are allocated after all variable qubits.

5. **Soft constraints** carry a ``preference`` in (0, 1] that scales their
   penalty weight. Breaking one costs energy but does not make an assignment
   invalid; decoding lists it under ``unmet_preferences``.

Penalty Weight
--------------
Each one-hot or domain-wall group and each constraint gets

    λ = penalty_scale × swing + penalty_margin

where ``swing`` is the sum of absolute objective QUBO coefficients touching
the group's qubits. No single violation can gain more than ``swing``, and the
strictly positive margin makes every violation a net loss. ``QuboConfig``
can override λ globally, and each ``Constraint`` may carry its own weight.

Literals
--------
Objective and constraint terms are products of *literals*. A literal is a
``(variable_name, value)`` pair, or a bare variable name:

    ("x", 1)       binary x
    ("x", 0)       binary complement 1 − x
    ("color", "red")   option bit "color == red"
    ("qty", 2)     option bit "qty == 2"
    "qty"          numeric value of an integer variable

Option literals are linear for one-hot and domain-wall variables. A
logarithmic variable only appears through its numeric value.

Example Usage
-------------
```python
from qaoa_core.problems.qubo_encoder import (
    QuboEncoder, Variable, ObjectiveTerm, Constraint, ConstraintSense,
)

variables = [
    Variable.binary(0, "a"),
    Variable.binary(1, "b"),
    Variable.categorical(2, "color", ["red", "green", "blue"]),
]
objective = [
    ObjectiveTerm(-1.0, (("a", 1),)),
    ObjectiveTerm(2.0, (("a", 1), ("color", "red"))),
]
constraints = [
    Constraint.of([(1.0, ("a", 1)), (1.0, ("b", 1))], ConstraintSense.LE, 1, name="at_most_one"),
]

encoding = QuboEncoder().encode(variables, constraints, objective)
decoded = encoding.decode([1, 0, 0, 1, 0, 0])
print(decoded.values["color"].value)  # 'green'
print(decoded.is_valid)
```
"""

from dataclasses import dataclass, field
from enum import Enum
from itertools import accumulate
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import logging
import math

from qaoa_core.config import QuboConfig
from qaoa_core.errors import EncodingError
from qaoa_core.problems.qubo_model import QuboModel, TermKey


logger = logging.getLogger(__name__)

LiteralSpec = Union[str, Tuple[str, Any]]

# Linear form over qubits: ({qubit: coefficient}, constant)
LinearForm = Tuple[Dict[int, float], float]

_INTEGRALITY_TOLERANCE = 1e-9


# ============================================================================
# Problem Description Types
# ============================================================================

class VariableKind(str, Enum):
    """How a decision variable is represented on qubits."""
    BINARY = "binary"
    INTEGER = "integer"
    CATEGORICAL = "categorical"


class ValueEncoding(str, Enum):
    """Qubit representation of an integer or categorical variable."""
    ONE_HOT = "one_hot"
    DOMAIN_WALL = "domain_wall"
    LOGARITHMIC = "logarithmic"


class ConstraintSense(str, Enum):
    """Relation between a constraint's left-hand side and its right-hand side."""
    EQ = "=="
    LE = "<="
    GE = ">="


@dataclass(frozen=True)
class Variable:
    """
    Decision variable declaration.

    Attributes:
        index: Position of the variable in the declaration order (0..m-1, contiguous)
        name: Unique variable name used by literals
        kind: Binary, integer or categorical
        values: Option list for integer/categorical variables (empty for binary)
        encoding: Qubit representation of the options (ignored for binary)
    """

    index: int
    name: str
    kind: VariableKind = VariableKind.BINARY
    values: Tuple[Any, ...] = ()
    encoding: ValueEncoding = ValueEncoding.ONE_HOT

    @classmethod
    def binary(cls, index: int, name: str) -> "Variable":
        return cls(index=index, name=name, kind=VariableKind.BINARY)

    @classmethod
    def integer(cls, index: int, name: str, low: int, high: int,
                encoding: Union[ValueEncoding, str] = ValueEncoding.ONE_HOT) -> "Variable":
        """Integer variable taking any value in the inclusive range [low, high]."""
        if high < low:
            raise EncodingError(f"Integer variable '{name}' has empty range [{low}, {high}]")
        return cls(index=index, name=name, kind=VariableKind.INTEGER,
                   values=tuple(range(low, high + 1)), encoding=ValueEncoding(encoding))

    @classmethod
    def categorical(cls, index: int, name: str, categories: Sequence[Any],
                    encoding: Union[ValueEncoding, str] = ValueEncoding.ONE_HOT) -> "Variable":
        return cls(index=index, name=name, kind=VariableKind.CATEGORICAL,
                   values=tuple(categories), encoding=ValueEncoding(encoding))

    @property
    def is_binary(self) -> bool:
        return self.kind is VariableKind.BINARY

    @property
    def is_one_hot(self) -> bool:
        return not self.is_binary and self.encoding is ValueEncoding.ONE_HOT

    @property
    def is_domain_wall(self) -> bool:
        return not self.is_binary and self.encoding is ValueEncoding.DOMAIN_WALL

    @property
    def is_logarithmic(self) -> bool:
        return not self.is_binary and self.encoding is ValueEncoding.LOGARITHMIC

    @property
    def num_qubits(self) -> int:
        if self.is_binary:
            return 1
        if self.is_domain_wall:
            return len(self.values) - 1
        if self.is_logarithmic:
            return len(_binary_weights(len(self.values) - 1))
        return len(self.values)


@dataclass(frozen=True)
class ObjectiveTerm:
    """``coefficient × Π literals`` with at most two literals."""

    coefficient: float
    literals: Tuple[LiteralSpec, ...] = ()


@dataclass(frozen=True)
class Constraint:
    """
    Linear constraint ``Σ coefficient·literal  <sense>  rhs``.

    Attributes:
        terms: ``(coefficient, literal)`` pairs
        sense: EQ, LE or GE
        rhs: Right-hand side constant
        name: Label used in decoding reports
        weight: Penalty weight override for this constraint
        preference: Makes the constraint soft; its penalty weight is scaled by
            this factor in (0, 1] and a violation does not invalidate a solution
    """

    terms: Tuple[Tuple[float, LiteralSpec], ...]
    sense: ConstraintSense
    rhs: float
    name: str = ""
    weight: Optional[float] = None
    preference: Optional[float] = None

    @classmethod
    def of(
        cls,
        terms: Iterable[Tuple[float, LiteralSpec]],
        sense: Union[ConstraintSense, str],
        rhs: float,
        name: str = "",
        weight: Optional[float] = None,
        preference: Optional[float] = None,
    ) -> "Constraint":
        return cls(terms=tuple(terms), sense=ConstraintSense(sense), rhs=rhs,
                   name=name, weight=weight, preference=preference)

    @property
    def is_soft(self) -> bool:
        return self.preference is not None


# ============================================================================
# Encoding Result Types
# ============================================================================

@dataclass(frozen=True)
class VariableLayout:
    """
    Qubits assigned to one variable.

    For one-hot variables ``qubits[k]`` represents ``variable.values[k]``; for
    domain-wall variables ``qubits[k]`` is set when the value lies beyond
    ``values[k]``; for logarithmic variables ``qubits[k]`` carries weight
    ``weights[k]``.
    """

    variable: Variable
    qubits: Tuple[int, ...]

    @property
    def weights(self) -> Tuple[int, ...]:
        if not self.variable.is_logarithmic:
            return ()
        return tuple(_binary_weights(len(self.variable.values) - 1))


@dataclass(frozen=True)
class SlackRegister:
    """Slack qubits of an inequality constraint and their binary weights."""

    constraint_name: str
    qubits: Tuple[int, ...]
    coefficients: Tuple[int, ...]

    @property
    def capacity(self) -> int:
        return sum(self.coefficients)


@dataclass(frozen=True)
class DecodedValue:
    """
    Decoded value of one variable.

    ``valid`` is False when a one-hot group has zero or several bits set or a
    domain wall is broken; the ``value`` is then ``None`` and ``reason``
    describes the violation.
    """

    name: str
    value: Any
    valid: bool = True
    reason: Optional[str] = None


@dataclass(frozen=True)
class DecodedAssignment:
    """
    Decoded bitstring: per-variable values plus constraint violations.

    ``unmet_preferences`` lists soft constraints that do not hold; they do not
    affect ``is_valid``.
    """

    bits: Tuple[int, ...]
    values: Mapping[str, DecodedValue]
    violated_constraints: Tuple[str, ...] = ()
    objective_value: Optional[float] = None
    unmet_preferences: Tuple[str, ...] = ()

    def __post_init__(self):
        if not isinstance(self.values, MappingProxyType):
            object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    @property
    def invalid_variables(self) -> List[str]:
        return [name for name, decoded in self.values.items() if not decoded.valid]

    @property
    def is_valid(self) -> bool:
        return not self.invalid_variables and not self.violated_constraints

    def as_dict(self) -> Dict[str, Any]:
        """Plain ``name -> value`` mapping (``None`` for invalid groups)."""
        return {name: decoded.value for name, decoded in self.values.items()}


@dataclass(frozen=True)
class QuboEncoding:
    """
    Output of ``QuboEncoder.encode``.

    Attributes:
        qubo: The penalty-form QUBO model
        variables: Declared variables in index order
        layouts: Qubit layout per variable name
        constraints: Declared constraints
        slack_registers: Slack qubits per inequality constraint
        objective: Declared objective terms
        penalty_weights: λ used for each one-hot group / constraint
    """

    qubo: QuboModel
    variables: Tuple[Variable, ...]
    layouts: Mapping[str, VariableLayout]
    constraints: Tuple[Constraint, ...] = ()
    slack_registers: Tuple[SlackRegister, ...] = ()
    objective: Tuple[ObjectiveTerm, ...] = ()
    penalty_weights: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self):
        # Read-only views over private copies
        for name in ("layouts", "penalty_weights"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))

    @property
    def num_qubits(self) -> int:
        return self.qubo.num_variables

    @property
    def num_slack_qubits(self) -> int:
        return sum(len(register.qubits) for register in self.slack_registers)

    def encode_assignment(self, values: Dict[str, Any]) -> List[int]:
        """
        Bits representing a domain assignment, slack registers included.

        Slack registers are filled with the constraint's remaining headroom
        when it fits; otherwise they are left at zero and the penalty shows the
        violation.

        Raises:
            EncodingError: If a variable is missing or a value is outside its domain
        """
        bits = [0] * self.num_qubits
        decoded: Dict[str, DecodedValue] = {}
        for variable in self.variables:
            if variable.name not in values:
                raise EncodingError(f"Assignment is missing variable '{variable.name}'")
            value = values[variable.name]
            layout = self.layouts[variable.name]
            if variable.is_binary:
                if value not in (0, 1):
                    raise EncodingError(f"Binary variable '{variable.name}' got {value!r}")
                bits[layout.qubits[0]] = int(value)
            else:
                if value not in variable.values:
                    raise EncodingError(f"Variable '{variable.name}' has no option {value!r}")
                for q, bit in zip(layout.qubits, _option_bits(layout, variable.values.index(value))):
                    bits[q] = bit
            decoded[variable.name] = DecodedValue(variable.name, value)

        registers = {register.constraint_name: register for register in self.slack_registers}
        for position, constraint in enumerate(self.constraints):
            register = registers.get(constraint.name or f"constraint_{position}")
            if register is None:
                continue
            lhs = _evaluate_terms([(c, (lit,)) for c, lit in constraint.terms], decoded, self.layouts)
            headroom = constraint.rhs - lhs if constraint.sense is ConstraintSense.LE else lhs - constraint.rhs
            slack = int(round(headroom))
            if slack < 0 or slack > register.capacity:
                continue
            for q, bit in zip(register.qubits, _weighted_bits(slack, register.coefficients)):
                bits[q] = bit
        return bits

    def decode(self, bits: Sequence[int]) -> DecodedAssignment:
        """
        Map a measured assignment back to domain values.

        One-hot groups with zero or several bits set and broken domain walls
        decode to an invalid ``DecodedValue``; nothing is raised for them.
        Constraints are checked on the decoded values and violations are
        listed by name, soft ones separately.

        Args:
            bits: 0/1 per qubit, or a bitstring with qubit 0 first

        Raises:
            EncodingError: If the assignment length does not match the qubit count
        """
        if isinstance(bits, str):
            bits = [int(ch) for ch in bits]
        bits = tuple(int(b) for b in bits)
        if len(bits) != self.num_qubits:
            raise EncodingError(
                f"Assignment has {len(bits)} bits, encoding uses {self.num_qubits} qubits"
            )

        values: Dict[str, DecodedValue] = {}
        for variable in self.variables:
            layout = self.layouts[variable.name]
            if variable.is_binary:
                values[variable.name] = DecodedValue(variable.name, bits[layout.qubits[0]])
            else:
                values[variable.name] = _decode_group(layout, [bits[q] for q in layout.qubits])

        violated: List[str] = []
        unmet: List[str] = []
        for position, constraint in enumerate(self.constraints):
            label = constraint.name or f"constraint_{position}"
            lhs = _evaluate_terms(
                [(c, (lit,)) for c, lit in constraint.terms], values, self.layouts
            )
            if lhs is None or not _satisfies(lhs, constraint.sense, constraint.rhs):
                (unmet if constraint.is_soft else violated).append(label)

        objective_value = _evaluate_terms(
            [(term.coefficient, term.literals) for term in self.objective], values, self.layouts
        )

        return DecodedAssignment(
            bits=bits,
            values=values,
            violated_constraints=tuple(violated),
            objective_value=objective_value,
            unmet_preferences=tuple(unmet),
        )


# ============================================================================
# Encoder
# ============================================================================

class QuboEncoder:
    """
    Encodes variables, objective terms and constraints into a ``QuboModel``.

    The encoder is stateless apart from its configuration; ``encode`` builds
    every intermediate mapping fresh, so one instance may be shared.
    """

    def __init__(self, config: Optional[QuboConfig] = None):
        self.config = config or QuboConfig()

    def encode(
        self,
        variables: Sequence[Variable],
        constraints: Sequence[Constraint] = (),
        objective: Sequence[ObjectiveTerm] = (),
    ) -> QuboEncoding:
        """
        Encode a constrained problem as a QUBO.

        Args:
            variables: Variable declarations with contiguous indices 0..m-1
            constraints: Linear equality/inequality constraints
            objective: Objective terms to minimize

        Returns:
            QuboEncoding with the model and decoding layout

        Raises:
            EncodingError: On malformed declarations, unknown literals, non-finite
                coefficients or infeasible inequality constraints
        """
        ordered = self._validate_variables(variables)
        layouts = self._allocate_qubits(ordered)
        num_variable_qubits = sum(v.num_qubits for v in ordered)

        # Objective first: penalty weights depend on its coefficients
        objective_terms: List[Tuple[TermKey, float]] = []
        objective_offset = 0.0
        for term in objective:
            contributions, constant = self._expand_objective_term(term, layouts)
            objective_terms.extend(contributions)
            objective_offset += constant

        swing_by_qubit = self._swing_by_qubit(objective_terms)

        penalty_terms: List[Tuple[TermKey, float]] = []
        penalty_offset = 0.0
        penalty_weights: Dict[str, float] = {}

        for variable in ordered:
            qubits = layouts[variable.name].qubits
            if variable.is_one_hot:
                lam = self._penalty_weight(qubits, swing_by_qubit)
                contributions, constant = _square_penalty(({q: 1.0 for q in qubits}, -1.0), lam)
            elif variable.is_domain_wall and len(qubits) > 1:
                lam = self._penalty_weight(qubits, swing_by_qubit)
                contributions, constant = _domain_wall_penalty(qubits, lam), 0.0
            else:
                continue
            penalty_weights[variable.name] = lam
            penalty_terms.extend(contributions)
            penalty_offset += constant

        slack_registers: List[SlackRegister] = []
        next_qubit = num_variable_qubits
        for position, constraint in enumerate(constraints):
            label = constraint.name or f"constraint_{position}"
            form = self._constraint_form(constraint, layouts, label)
            touched = tuple(form[0].keys())
            lam = (constraint.weight if constraint.weight is not None
                   else self._penalty_weight(touched, swing_by_qubit))
            if constraint.is_soft:
                lam *= self._preference(constraint, label)
            penalty_weights[label] = lam

            form, register = self._apply_slack(form, constraint.sense, label, layouts, next_qubit)
            if form is None:
                logger.debug(f"Constraint '{label}' always satisfied, no penalty added")
                continue
            if register is not None:
                slack_registers.append(register)
                next_qubit += len(register.qubits)

            contributions, constant = _square_penalty(form, lam)
            penalty_terms.extend(contributions)
            penalty_offset += constant

        names = [None] * next_qubit
        for layout in layouts.values():
            for k, q in enumerate(layout.qubits):
                names[q] = _qubit_label(layout, k)
        for register in slack_registers:
            for k, q in enumerate(register.qubits):
                names[q] = f"{register.constraint_name}.slack[{k}]"

        qubo = QuboModel.from_terms(
            next_qubit,
            objective_terms + penalty_terms,
            offset=objective_offset + penalty_offset,
            variable_names=names,
        )

        logger.info(
            f"Encoded {len(ordered)} variables and {len(constraints)} constraints "
            f"into {qubo.num_variables} qubits ({len(slack_registers)} slack registers, "
            f"{len(qubo.terms)} QUBO terms)"
        )

        return QuboEncoding(
            qubo=qubo,
            variables=tuple(ordered),
            layouts=MappingProxyType(layouts),
            constraints=tuple(constraints),
            slack_registers=tuple(slack_registers),
            objective=tuple(objective),
            penalty_weights=MappingProxyType(penalty_weights),
        )

    # ========================================================================
    # Validation and Layout
    # ========================================================================

    def _validate_variables(self, variables: Sequence[Variable]) -> List[Variable]:
        if not variables:
            raise EncodingError("At least one variable is required")

        names = set()
        indices = set()
        for variable in variables:
            if not variable.name:
                raise EncodingError(f"Variable at index {variable.index} has no name")
            if variable.name in names:
                raise EncodingError(f"Duplicate variable name '{variable.name}'")
            if variable.index in indices:
                raise EncodingError(f"Duplicate variable index {variable.index}")
            if variable.index < 0:
                raise EncodingError(f"Negative variable index {variable.index} for '{variable.name}'")
            if variable.is_binary:
                if variable.values:
                    raise EncodingError(f"Binary variable '{variable.name}' must not declare values")
            else:
                self._validate_options(variable)
            names.add(variable.name)
            indices.add(variable.index)

        if indices != set(range(len(variables))):
            raise EncodingError(
                f"Variable indices must be contiguous from 0, got {sorted(indices)}"
            )

        return sorted(variables, key=lambda v: v.index)

    @staticmethod
    def _validate_options(variable: Variable) -> None:
        name = variable.name
        if not variable.values:
            raise EncodingError(f"Variable '{name}' has no options")
        if len(set(variable.values)) != len(variable.values):
            raise EncodingError(f"Variable '{name}' has duplicate options")
        if variable.is_domain_wall and len(variable.values) < 2:
            raise EncodingError(f"Domain-wall variable '{name}' needs at least 2 options")
        if variable.is_logarithmic:
            if variable.kind is not VariableKind.INTEGER:
                raise EncodingError(f"Logarithmic encoding of '{name}' requires an integer variable")
            low = variable.values[0]
            if len(variable.values) < 2 or variable.values != tuple(range(low, low + len(variable.values))):
                raise EncodingError(
                    f"Logarithmic variable '{name}' needs a contiguous range of at least 2 values"
                )

    @staticmethod
    def _preference(constraint: Constraint, label: str) -> float:
        preference = constraint.preference
        if not math.isfinite(preference) or not 0.0 < preference <= 1.0:
            raise EncodingError(
                f"Soft constraint '{label}' has preference {preference}, expected a value in (0, 1]"
            )
        return preference

    @staticmethod
    def _allocate_qubits(ordered: Sequence[Variable]) -> Dict[str, VariableLayout]:
        layouts: Dict[str, VariableLayout] = {}
        next_qubit = 0
        for variable in ordered:
            qubits = tuple(range(next_qubit, next_qubit + variable.num_qubits))
            layouts[variable.name] = VariableLayout(variable=variable, qubits=qubits)
            next_qubit += variable.num_qubits
        return layouts

    # ========================================================================
    # Objective
    # ========================================================================

    def _expand_objective_term(
        self,
        term: ObjectiveTerm,
        layouts: Dict[str, VariableLayout],
    ) -> Tuple[List[Tuple[TermKey, float]], float]:
        if not math.isfinite(term.coefficient):
            raise EncodingError(f"Non-finite objective coefficient {term.coefficient}")
        if len(term.literals) > 2:
            raise EncodingError(
                f"Objective terms are at most quadratic, got {len(term.literals)} literals"
            )

        forms = [_literal_form(literal, layouts) for literal in term.literals]
        if not forms:
            return [], float(term.coefficient)
        if len(forms) == 1:
            linear, constant = forms[0]
            return [((q, q), term.coefficient * c) for q, c in linear.items()], term.coefficient * constant
        return _product(forms[0], forms[1], term.coefficient)

    @staticmethod
    def _swing_by_qubit(objective_terms: List[Tuple[TermKey, float]]) -> Dict[int, float]:
        swing: Dict[int, float] = {}
        for (i, j), c in objective_terms:
            swing[i] = swing.get(i, 0.0) + abs(c)
            if j != i:
                swing[j] = swing.get(j, 0.0) + abs(c)
        return swing

    def _penalty_weight(self, qubits: Sequence[int], swing_by_qubit: Dict[int, float]) -> float:
        if self.config.penalty_weight is not None:
            return self.config.penalty_weight
        swing = sum(swing_by_qubit.get(q, 0.0) for q in set(qubits))
        return self.config.penalty_scale * swing + self.config.penalty_margin

    # ========================================================================
    # Constraints
    # ========================================================================

    def _constraint_form(
        self,
        constraint: Constraint,
        layouts: Dict[str, VariableLayout],
        label: str,
    ) -> LinearForm:
        """LHS − rhs as a linear form over qubits."""
        if not constraint.terms:
            raise EncodingError(f"Constraint '{label}' has no terms")
        if not math.isfinite(constraint.rhs):
            raise EncodingError(f"Constraint '{label}' has non-finite rhs {constraint.rhs}")

        linear: Dict[int, float] = {}
        constant = -float(constraint.rhs)
        for coefficient, literal in constraint.terms:
            if not math.isfinite(coefficient):
                raise EncodingError(f"Constraint '{label}' has non-finite coefficient {coefficient}")
            literal_linear, literal_constant = _literal_form(literal, layouts)
            for q, c in literal_linear.items():
                linear[q] = linear.get(q, 0.0) + coefficient * c
            constant += coefficient * literal_constant
        return linear, constant

    def _apply_slack(
        self,
        form: LinearForm,
        sense: ConstraintSense,
        label: str,
        layouts: Dict[str, VariableLayout],
        first_slack_qubit: int,
    ) -> Tuple[Optional[LinearForm], Optional[SlackRegister]]:
        """
        Turn ``form <sense> 0`` into an equality ``form' == 0``.

        Returns ``(None, None)`` when the constraint can never be violated.

        Raises:
            EncodingError: If the constraint cannot be satisfied by any assignment
        """
        if sense is ConstraintSense.EQ:
            low, high = _form_bounds(form, layouts)
            if low > _INTEGRALITY_TOLERANCE or high < -_INTEGRALITY_TOLERANCE:
                raise EncodingError(f"Equality constraint '{label}' is infeasible")
            return form, None

        linear, constant = form
        if sense is ConstraintSense.GE:
            linear = {q: -c for q, c in linear.items()}
            constant = -constant

        low, high = _form_bounds((linear, constant), layouts)
        if low > _INTEGRALITY_TOLERANCE:
            raise EncodingError(
                f"Inequality constraint '{label}' is infeasible (minimum slack {-low:.4g})"
            )
        if high <= _INTEGRALITY_TOLERANCE:
            return None, None

        if any(abs(c - round(c)) > _INTEGRALITY_TOLERANCE for c in list(linear.values()) + [constant]):
            logger.warning(
                f"Constraint '{label}' has non-integral coefficients; "
                f"integer slack may not reach every feasible value"
            )

        slack_range = int(math.floor(-low + _INTEGRALITY_TOLERANCE))
        coefficients = _binary_weights(slack_range)
        if not coefficients:
            return (linear, constant), None

        qubits = tuple(range(first_slack_qubit, first_slack_qubit + len(coefficients)))
        linear = dict(linear)
        for q, c in zip(qubits, coefficients):
            linear[q] = float(c)

        register = SlackRegister(constraint_name=label, qubits=qubits, coefficients=tuple(coefficients))
        logger.debug(f"Constraint '{label}' uses {len(qubits)} slack qubits covering [0, {slack_range}]")
        return (linear, constant), register


# ============================================================================
# Helpers
# ============================================================================

def _binary_weights(upper: int) -> List[int]:
    """
    Binary weights whose subset sums cover exactly ``0..upper``.

    Weights are 1, 2, 4, ... with the last one capped, e.g. upper=5 gives
    [1, 2, 2] and upper=7 gives [1, 2, 4].
    """
    if upper <= 0:
        return []
    num_bits = upper.bit_length()
    coefficients = [2 ** k for k in range(num_bits - 1)]
    coefficients.append(upper - (2 ** (num_bits - 1) - 1))
    return coefficients


def _weighted_bits(value: int, weights: Sequence[int]) -> List[int]:
    """Bits over ``_binary_weights`` whose weighted sum is ``value``."""
    bits = [0] * len(weights)
    if not weights:
        return bits
    # Capped top weight first; the remainder always fits the power-of-two weights
    top = weights[-1]
    if value >= top:
        bits[-1] = 1
        value -= top
    for k, weight in enumerate(weights[:-1]):
        bits[k] = (value // weight) & 1
    return bits


def _option_bits(layout: VariableLayout, position: int) -> List[int]:
    """Group bits representing ``variable.values[position]``."""
    variable = layout.variable
    if variable.is_domain_wall:
        return [1 if k < position else 0 for k in range(len(layout.qubits))]
    if variable.is_logarithmic:
        return _weighted_bits(position, layout.weights)
    return [1 if k == position else 0 for k in range(len(layout.qubits))]


def _decode_group(layout: VariableLayout, bits: Sequence[int]) -> DecodedValue:
    variable = layout.variable
    if variable.is_logarithmic:
        offset = sum(w * b for w, b in zip(layout.weights, bits))
        return DecodedValue(variable.name, variable.values[offset])

    if variable.is_domain_wall:
        ascents = sum(1 for a, b in zip(bits, bits[1:]) if b > a)
        if ascents == 0:
            return DecodedValue(variable.name, variable.values[sum(bits)])
        return DecodedValue(variable.name, None, valid=False,
                            reason=f"domain wall broken at {ascents} position(s)")

    selected = [k for k, bit in enumerate(bits) if bit == 1]
    if len(selected) == 1:
        return DecodedValue(variable.name, variable.values[selected[0]])
    return DecodedValue(variable.name, None, valid=False,
                        reason=f"one-hot group has {len(selected)} bits set")


def _qubit_label(layout: VariableLayout, k: int) -> str:
    variable = layout.variable
    if variable.is_binary:
        return variable.name
    if variable.is_domain_wall:
        return f"{variable.name}>{variable.values[k]}"
    if variable.is_logarithmic:
        return f"{variable.name}.bit[{k}]"
    return f"{variable.name}={variable.values[k]}"


def _domain_wall_penalty(qubits: Sequence[int], weight: float) -> List[Tuple[TermKey, float]]:
    """Expand ``weight × Σ x_{i+1} (1 − x_i)``, which is zero only on walls 1…10…0."""
    contributions: List[Tuple[TermKey, float]] = []
    for a, b in zip(qubits, qubits[1:]):
        contributions.append(((b, b), weight))
        contributions.append(((a, b), -weight))
    return contributions


def _resolve_literal(literal: LiteralSpec, layouts: Mapping[str, VariableLayout]) -> Tuple[VariableLayout, Any]:
    if isinstance(literal, str):
        name, value = literal, None
    else:
        try:
            name, value = literal
        except (TypeError, ValueError):
            raise EncodingError(f"Malformed literal {literal!r}; expected name or (name, value)")

    if name not in layouts:
        raise EncodingError(f"Literal refers to unknown variable '{name}'")
    return layouts[name], value


def _literal_form(literal: LiteralSpec, layouts: Mapping[str, VariableLayout]) -> LinearForm:
    """Expand a literal into a linear form over qubits."""
    layout, value = _resolve_literal(literal, layouts)
    variable = layout.variable

    if variable.is_binary:
        q = layout.qubits[0]
        if value is None or value == 1:
            return {q: 1.0}, 0.0
        if value == 0:
            return {q: -1.0}, 1.0
        raise EncodingError(f"Binary variable '{variable.name}' has no value {value!r}")

    if value is None:
        if variable.kind is not VariableKind.INTEGER:
            raise EncodingError(
                f"Categorical variable '{variable.name}' has no numeric value; use (name, category)"
            )
        return _numeric_form(layout)

    if value not in variable.values:
        raise EncodingError(f"Variable '{variable.name}' has no option {value!r}")
    return _option_form(layout, variable.values.index(value))


def _numeric_form(layout: VariableLayout) -> LinearForm:
    """Numeric value of an integer variable as a linear form."""
    values = layout.variable.values
    if layout.variable.is_one_hot:
        return {q: float(v) for q, v in zip(layout.qubits, values) if v != 0}, 0.0
    if layout.variable.is_domain_wall:
        steps = {q: float(values[k + 1] - values[k]) for k, q in enumerate(layout.qubits)}
        return steps, float(values[0])
    return {q: float(w) for q, w in zip(layout.qubits, layout.weights)}, float(values[0])


def _option_form(layout: VariableLayout, position: int) -> LinearForm:
    """Indicator of ``values[position]`` as a linear form."""
    variable = layout.variable
    if variable.is_one_hot:
        return {layout.qubits[position]: 1.0}, 0.0
    if variable.is_logarithmic:
        raise EncodingError(
            f"Variable '{variable.name}' is logarithmic; only its numeric value can appear in terms"
        )
    # Domain wall: value k holds exactly when bit k-1 is set and bit k is not
    linear: Dict[int, float] = {}
    constant = 0.0
    if position == 0:
        constant = 1.0
    else:
        linear[layout.qubits[position - 1]] = 1.0
    if position < len(layout.qubits):
        linear[layout.qubits[position]] = -1.0
    return linear, constant


def _literal_value(literal: LiteralSpec, values: Mapping[str, DecodedValue],
                   layouts: Mapping[str, VariableLayout]) -> Optional[float]:
    """Value of a literal under a decoded assignment (None if its variable is invalid)."""
    layout, value = _resolve_literal(literal, layouts)
    decoded = values[layout.variable.name]
    if not decoded.valid:
        return None
    if layout.variable.is_binary:
        if value is None or value == 1:
            return float(decoded.value)
        return 1.0 - float(decoded.value)
    if value is None:
        return float(decoded.value)
    return 1.0 if decoded.value == value else 0.0


def _evaluate_terms(terms: Sequence[Tuple[float, Sequence[LiteralSpec]]],
                    values: Mapping[str, DecodedValue],
                    layouts: Mapping[str, VariableLayout]) -> Optional[float]:
    total = 0.0
    for coefficient, literals in terms:
        product = coefficient
        for literal in literals:
            literal_value = _literal_value(literal, values, layouts)
            if literal_value is None:
                return None
            product *= literal_value
        total += product
    return total


def _satisfies(lhs: float, sense: ConstraintSense, rhs: float) -> bool:
    if sense is ConstraintSense.EQ:
        return abs(lhs - rhs) <= _INTEGRALITY_TOLERANCE
    if sense is ConstraintSense.LE:
        return lhs <= rhs + _INTEGRALITY_TOLERANCE
    return lhs >= rhs - _INTEGRALITY_TOLERANCE


def _form_bounds(form: LinearForm, layouts: Mapping[str, VariableLayout]) -> Tuple[float, float]:
    """
    Minimum and maximum of a linear form over assignments that respect variable groups.

    A one-hot group contributes exactly one of its option coefficients, a
    domain-wall group one of its prefix sums, and any other qubit 0 or its
    coefficient.
    """
    linear, constant = form
    low = high = constant
    owner = {q: layout for layout in layouts.values() for q in layout.qubits}
    seen = set()
    for q, c in linear.items():
        layout = owner.get(q)
        if layout is None or not (layout.variable.is_one_hot or layout.variable.is_domain_wall):
            low += min(0.0, c)
            high += max(0.0, c)
            continue
        if layout.variable.name in seen:
            continue
        seen.add(layout.variable.name)
        coefficients = [linear.get(member, 0.0) for member in layout.qubits]
        if layout.variable.is_domain_wall:
            options = list(accumulate([0.0] + coefficients))
        else:
            options = coefficients
        low += min(options)
        high += max(options)
    return low, high


def _product(left: LinearForm, right: LinearForm, scale: float) -> Tuple[List[Tuple[TermKey, float]], float]:
    """Expand ``scale × left × right`` into QUBO contributions and a constant."""
    left_linear, left_constant = left
    right_linear, right_constant = right
    contributions: List[Tuple[TermKey, float]] = []

    for a, ca in left_linear.items():
        for b, cb in right_linear.items():
            contributions.append(((a, b), scale * ca * cb))
    for a, ca in left_linear.items():
        contributions.append(((a, a), scale * ca * right_constant))
    for b, cb in right_linear.items():
        contributions.append(((b, b), scale * cb * left_constant))

    return contributions, scale * left_constant * right_constant


def _square_penalty(form: LinearForm, weight: float) -> Tuple[List[Tuple[TermKey, float]], float]:
    """Expand ``weight × (Σ c_q x_q + k)²`` using x_q² = x_q."""
    linear, constant = form
    qubits = sorted(linear)
    contributions: List[Tuple[TermKey, float]] = []

    for position, a in enumerate(qubits):
        ca = linear[a]
        contributions.append(((a, a), weight * (ca * ca + 2.0 * ca * constant)))
        for b in qubits[position + 1:]:
            contributions.append(((a, b), weight * 2.0 * ca * linear[b]))

    return contributions, weight * constant * constant
