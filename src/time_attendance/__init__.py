"""Time Attendance package.

This package is organized by feature modules (attendance, stores, strategies)
with a thin Flask controller layer over service/state-machine layers and
Protocol contracts for the backend collaborators.
"""
