"""
deployhub-api Application Package

Directory Structure:
├── routers/           # FastAPI route handlers
├── schemas/           # Pydantic models for API requests/responses
│   ├── api_schemas.py # HTTP request/response structures
│   └── transformers.py # ORM rows -> API schemas
├── services/          # Business logic, one service per entity
├── db/                # SQLAlchemy models, sessions and transactions
├── storage/           # S3 object storage for model and bento archives
├── kube/              # Kubernetes clients (pods, BentoDeployment resources)
├── domain/            # Errors, enums, constants and domain events
├── application/       # Event handlers and name validation
└── config.py         # Application configuration

Model Types Clarification:
1. **API Schemas** (deployhub.schemas.api_schemas): Pydantic models for HTTP requests/responses
2. **Database Models** (deployhub.db.models): Relational metadata about repositories,
   versions, clusters and deployments
3. **ML Models and Bentos**: the artifacts themselves, stored as ``.tar.gz``
   objects in the organization's S3 buckets

deployhub-api keeps the metadata in the database, moves the artifacts in and
out of S3, and reconciles deployments into BentoDeployment resources on the
organization's Kubernetes clusters.
"""
