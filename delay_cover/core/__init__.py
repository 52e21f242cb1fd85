"""
Policy lifecycle core: correlator, scheduler, state machine and the two oracle
phase handlers. Collaborators are injected; nothing here talks to the network.
"""
