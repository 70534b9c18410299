"""Concrete curve instantiations for the issuer core."""
