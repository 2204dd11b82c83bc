"""
Nonlinear 2D structural element assembly for plate and panel models.

Element residuals and tangents for membrane, bending, von Karman, thermal,
prestress, surface pressure and piston theory loads, with the parameter
sensitivity of each contribution and stress recovery.
"""

__version__ = "0.1.0"
