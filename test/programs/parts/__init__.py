"""
Commands split over several modules, discovered with a module glob.
"""
