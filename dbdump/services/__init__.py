"""
Things built on top of the loader: downloading the export and reports.
"""
