"""
Lyceum Backend — Dynamic Query Layer
======================================

What:  Turns arbitrary query-string parameters into MongoDB filter and sort
       documents, using the document models' own field declarations.
How:   schema_paths.py flattens a model into dotted stored paths with a type
       name per path; query_builder.py applies the filter rules per path type.
Who:   Used by CrudService for every list and lookup endpoint.
"""
