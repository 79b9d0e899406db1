# simulations/__init__.py
"""
Monte Carlo harness for the pity-outcomes repo.

Run a banner simulation via:
    python -m simulations.cli --banner standard --pulls 50 --pulls 100 --ntrials 1000000
"""
