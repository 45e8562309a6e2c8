"""
Lifecycle tooling for the iAgent EKS environment
"""
