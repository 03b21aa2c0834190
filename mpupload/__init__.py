"""Client-driven multipart upload orchestration for S3-compatible stores."""
