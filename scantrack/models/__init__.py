"""
ScanTrack — Production Scan Reconciliation
Model package.

Exposes the shared Flask-SQLAlchemy instance. Domain models live in
sibling modules and import ``db`` from here.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
