from typing import Tuple, Union

import numpy as np
import numpy.typing
import scipy.sparse as sp

# Common type for real Arrays, e.g. the vector of differential states
Array = numpy.typing.NDArray[np.float64]

# Complex-valued arrays, e.g. bus voltage phasors
ComplexArray = numpy.typing.NDArray[np.complex128]

# Objects that can be coerced into an Array
ArrayLike = numpy.typing.ArrayLike

# Common type for dense and sparse matrices
Matrix = Union[np.ndarray, sp.spmatrix]

# States are addressed by (device name, state symbol), e.g. ("generator-101-1", "eq_p")
StateName = Tuple[str, str]
