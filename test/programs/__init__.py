"""
Sample programs used as discovery sources by the test suite.
"""
