"""Entity persistence chain for registration steps.

- context: request-scoped state shared by all handlers of a chain
- persister: insert/update of one entity through registered operations
- chain: entity handler descriptors and the driver loop running them
- finalizer: validate, map, persist, check completion, report
- steps: the customer data save and update steps
"""
