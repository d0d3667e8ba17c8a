"""Domain records and write-shape inputs for the compliance engine.

Import models from their submodules (``irb_compliance.models.submission``
and so on). Record modules depend on the classification rules for their
derived fields, so this package does not re-export them.
"""
