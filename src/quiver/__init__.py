"""
quiver — Tag and push container images to cloud registries.

    quiver image push hub myapp:v1
    quiver image push aws myapp:v1 --region us-east-1 --repository myrepo
    quiver image push gcp myapp:v1 --project-id my-project
"""

__version__ = "0.1.0"
