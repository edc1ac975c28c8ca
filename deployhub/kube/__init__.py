from deployhub.kube.client import KubeClient, BentoDeploymentClient, load_api_client

__all__ = ['KubeClient', 'BentoDeploymentClient', 'load_api_client']
