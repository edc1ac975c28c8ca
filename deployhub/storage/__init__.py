from deployhub.storage.interface import ObjectStorage
from deployhub.storage.s3 import S3Config, S3Storage

__all__ = ['ObjectStorage', 'S3Config', 'S3Storage']
