"""
Service layer for AWS provisioning.

Per-resource services wrap the boto3 clients owned by ``AWSClient``; the
database and filestore modules compose them into installation lifecycles.
"""
