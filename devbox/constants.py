# devbox/constants.py

# Network layout
AZ_COUNT = 2
SUBNET_PREFIX = 24
ANY_IPV4 = "0.0.0.0/0"

# Ports
SSH_PORT = 22
HTTPS_PORT = 443

# AWS stores provider-generated key pairs under this SSM prefix, keyed by key pair id
KEYPAIR_PARAMETER_PREFIX = "/ec2/keypair/"

# Login users per topology
EC2_SSH_USER = "ec2-user"
CONTAINER_SSH_USER = "root"

# Images
AL2023_AMI_NAME_FILTER = "al2023-ami-2023.*-x86_64"
DEFAULT_CONTAINER_IMAGE = "public.ecr.aws/amazonlinux/amazonlinux:2"
CONTAINER_NAME = "dev-container"

# Toolchain installers (fetched at first boot, never vendored)
NVM_INSTALL_URL = "https://raw.githubusercontent.com/nvm-sh/nvm/{version}/install.sh"
AWSCLI_URL = "https://awscli.amazonaws.com/awscli-exe-linux-x86_64.zip"

# Service principals
EC2_PRINCIPAL = "ec2.amazonaws.com"
ECS_TASKS_PRINCIPAL = "ecs-tasks.amazonaws.com"
FLOW_LOGS_PRINCIPAL = "vpc-flow-logs.amazonaws.com"

# AWS managed policies
POLICY_SSM_MANAGED_INSTANCE = "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"
POLICY_CLOUDWATCH_AGENT = "arn:aws:iam::aws:policy/CloudWatchAgentServerPolicy"
POLICY_ECS_TASK_EXECUTION = "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy"

# Component resource type token
ENVIRONMENT_TYPE = "devbox:environment:DevEnvironment"
