"""
Generation Module

Workflow templates, the job runner client and the generation endpoints.
"""
