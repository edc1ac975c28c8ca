"""Kubernetes labels and custom resource coordinates."""

KUBE_LABEL_PREFIX = "deployhub.io"
KUBE_LABEL_MODEL_REPOSITORY = f"{KUBE_LABEL_PREFIX}/model-repository"
KUBE_LABEL_MODEL = f"{KUBE_LABEL_PREFIX}/model"
KUBE_LABEL_BENTO_REPOSITORY = f"{KUBE_LABEL_PREFIX}/bento-repository"
KUBE_LABEL_BENTO = f"{KUBE_LABEL_PREFIX}/bento"

BENTO_DEPLOYMENT_GROUP = "serving.yatai.ai"
BENTO_DEPLOYMENT_VERSION = "v1alpha2"
BENTO_DEPLOYMENT_PLURAL = "bentodeployments"
BENTO_DEPLOYMENT_KIND = "BentoDeployment"

API_TOKEN_HEADER = "X-Api-Token"
ORGANIZATION_HEADER = "X-Organization"

# S3 credentials are never echoed back; this placeholder stands in for them
S3_CREDENTIAL_KEYS = ("access_key", "secret_key")
SECRET_MASK = "******"
