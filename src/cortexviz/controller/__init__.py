"""
The CONTROLLER layer mutates shared state: the command loop, the journal
fetch coordinator and the wiring between store notifications.
"""
