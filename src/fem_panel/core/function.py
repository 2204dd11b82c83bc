"""
Design parameters and field functions.

A ``FieldFunction`` is a value defined over the structure, evaluated at a
physical point and time, that knows its derivative with respect to any design
``Parameter``:

    f(x, t)                  -> value
    f.derivative(p, x, t)    -> d f / d p
    f.depends_on(p)          -> bool

Values may be scalars, vectors or matrices (``numpy`` arrays). Parameters are
compared by identity, so two parameters with the same name are distinct.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, Optional

import numpy as np


class Parameter:
    """Scalar design parameter.

    Parameters
    ----------
    name : str
        Parameter name.
    value : float
        Current value.
    is_shape_parameter : bool
        True for parameters that move the geometry (shape sensitivity).
    """

    def __init__(self, name: str, value: float, is_shape_parameter: bool = False):
        self.name = name
        self.value = float(value)
        self.is_shape_parameter = is_shape_parameter

    def __call__(self) -> float:
        return self.value

    def __float__(self) -> float:
        return self.value

    def __repr__(self):
        return f"<Parameter {self.name}={self.value}>"


class FieldFunction(ABC):
    """Base class of all field functions.

    Parameters
    ----------
    name : str
        Function name, used as lookup key by property cards and boundary
        conditions.
    dependencies : iterable of FieldFunction
        Functions this one is computed from; ``depends_on`` is true if any of
        them depends on the parameter.
    """

    def __init__(self, name: str, dependencies: Iterable["FieldFunction"] = ()):
        self.name = name
        self._dependencies = list(dependencies)

    @abstractmethod
    def __call__(self, point: np.ndarray, time: float):
        """Value at ``point`` and ``time``."""

    @abstractmethod
    def derivative(self, parameter: Parameter, point: np.ndarray, time: float):
        """Partial derivative with respect to ``parameter``."""

    def depends_on(self, parameter: Parameter) -> bool:
        return any(f.depends_on(parameter) for f in self._dependencies)

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"


class ConstantFieldFunction(FieldFunction):
    """Uniform field equal to the value of a parameter.

    Examples
    --------
    >>> E = Parameter("E", 72e9)
    >>> E_f = ConstantFieldFunction("E", E)
    >>> E_f(np.zeros(3), 0.0)
    72000000000.0
    >>> E_f.derivative(E, np.zeros(3), 0.0)
    1.0
    """

    def __init__(self, name: str, parameter: Parameter):
        super().__init__(name)
        self.parameter = parameter

    @classmethod
    def from_value(cls, name: str, value: float) -> "ConstantFieldFunction":
        """Constant function backed by a private parameter of the same name"""
        return cls(name, Parameter(name, value))

    def __call__(self, point: np.ndarray, time: float) -> float:
        return self.parameter.value

    def derivative(self, parameter: Parameter, point: np.ndarray, time: float) -> float:
        return 1.0 if parameter is self.parameter else 0.0

    def depends_on(self, parameter: Parameter) -> bool:
        return parameter is self.parameter


class CallableFieldFunction(FieldFunction):
    """Field function wrapping a user callable ``func(point, time)``.

    Parameters
    ----------
    name : str
        Function name.
    func : callable
        Value as a function of point and time.
    derivatives : dict, optional
        Map from ``Parameter`` to a callable ``(point, time) -> derivative``.
        Parameters not present have a zero derivative.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[np.ndarray, float], object],
        derivatives: Optional[Dict[Parameter, Callable[[np.ndarray, float], object]]] = None,
    ):
        super().__init__(name)
        self._func = func
        self._derivatives = dict(derivatives or {})

    def __call__(self, point: np.ndarray, time: float):
        return self._func(point, time)

    def derivative(self, parameter: Parameter, point: np.ndarray, time: float):
        d = self._derivatives.get(parameter)
        if d is None:
            return np.zeros_like(np.asarray(self._func(point, time), dtype=float))
        return d(point, time)

    def depends_on(self, parameter: Parameter) -> bool:
        return parameter in self._derivatives


class CompositeFieldFunction(FieldFunction):
    """Field function computed from other field functions.

    The value and its chain-rule derivative are given as closures over the
    dependencies; ``depends_on`` is inherited from them.

    Parameters
    ----------
    name : str
        Function name.
    value : callable
        ``value(point, time)``.
    derivative : callable
        ``derivative(parameter, point, time)``.
    dependencies : iterable of FieldFunction
        Functions the closures evaluate.
    """

    def __init__(
        self,
        name: str,
        value: Callable[[np.ndarray, float], object],
        derivative: Callable[[Parameter, np.ndarray, float], object],
        dependencies: Iterable[FieldFunction],
    ):
        super().__init__(name, dependencies)
        self._value = value
        self._derivative = derivative

    def __call__(self, point: np.ndarray, time: float):
        return self._value(point, time)

    def derivative(self, parameter: Parameter, point: np.ndarray, time: float):
        return self._derivative(parameter, point, time)


def as_field_function(name: str, value) -> FieldFunction:
    """Wrap a number or a ``Parameter`` into a field function"""
    if isinstance(value, FieldFunction):
        return value
    if isinstance(value, Parameter):
        return ConstantFieldFunction(name, value)
    return ConstantFieldFunction.from_value(name, float(value))
