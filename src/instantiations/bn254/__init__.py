from .inst import Bn254Curve, make_bn254_curve

__all__ = ["Bn254Curve", "make_bn254_curve"]
