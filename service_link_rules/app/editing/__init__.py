"""
Rule editing package.

Everything between "the user changed something" and "the change is
persisted": plan limits, priority bookkeeping, payload normalization,
validation, the local working copy and the reconciliation that turns a
working copy into create/update/delete calls.
"""
