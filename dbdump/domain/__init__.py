"""
What the export contains: field codecs, identifier types, record models and
the table registry.
"""
