"""
prsgen

Polygenic risk scoring from BGEN genotype probability files.
"""

__version__ = "0.1.0"
