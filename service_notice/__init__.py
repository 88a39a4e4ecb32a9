"""
Notice Relay notice service.
"""
