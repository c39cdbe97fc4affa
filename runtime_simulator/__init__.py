"""
Runtime Simulator package

This package contains the test sequence execution engine: the fixed-rate
tick loop that advances the enabled steps of a sequence, generates the
synthetic signal, evaluates end criteria and keeps a bounded sample
history for charting.

The engine is a library component. Editors drive it through run-control
commands and read immutable snapshots; ``main`` runs it headless.
"""
