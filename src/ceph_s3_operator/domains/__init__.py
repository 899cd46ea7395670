"""Domain modules of the S3 operator."""
