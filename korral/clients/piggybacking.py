"""
Obtaining the privileged connection info from the environment.

The access layer performs its own lookups (e.g. of the role bindings) with
the credentials of the process itself: either from the in-cluster service
account, or from a kubeconfig file for the local development.

Only the raw data is taken from these sources: no token refreshing,
no exec-plugins, no multi-step logins. For anything more sophisticated,
the embedding application constructs `ConnectionInfo` on its own.
"""
import os
from typing import Any, Dict, Optional

import yaml

from korral.structs import credentials

# As per https://kubernetes.io/docs/tasks/run-application/access-api-from-pod/
SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'
IN_CLUSTER_SERVER = 'https://kubernetes.default.svc'


def login() -> credentials.ConnectionInfo:
    """
    Get the connection info from the first available source, or fail.
    """
    info = login_with_service_account() or login_with_kubeconfig()
    if info is None:
        raise credentials.LoginError("Neither a service account nor a kubeconfig is found.")
    return info


def login_with_service_account() -> Optional[credentials.ConnectionInfo]:
    token_path = os.path.join(SERVICE_ACCOUNT_DIR, 'token')
    ns_path = os.path.join(SERVICE_ACCOUNT_DIR, 'namespace')
    ca_path = os.path.join(SERVICE_ACCOUNT_DIR, 'ca.crt')

    if not os.path.exists(token_path):
        return None

    with open(token_path, encoding='utf-8') as f:
        token = f.read().strip()

    namespace: Optional[str] = None
    if os.path.exists(ns_path):
        with open(ns_path, encoding='utf-8') as f:
            namespace = f.read().strip()

    return credentials.ConnectionInfo(
        server=IN_CLUSTER_SERVER,
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token or None,
        default_namespace=namespace or None,
    )


def has_kubeconfig() -> bool:
    env_var_set = bool(os.environ.get('KUBECONFIG'))
    file_exists = os.path.exists(os.path.expanduser('~/.kube/config'))
    return env_var_set or file_exists


def login_with_kubeconfig() -> Optional[credentials.ConnectionInfo]:
    """
    Read the current context of the kubeconfig file(s) into the connection info.

    ``$KUBECONFIG`` can list several files; the first-seen values win,
    as the kubeconfig's merging rules prescribe.
    """
    kubeconfig = os.environ.get('KUBECONFIG')
    if not kubeconfig and os.path.exists(os.path.expanduser('~/.kube/config')):
        kubeconfig = '~/.kube/config'
    if not kubeconfig:
        return None

    paths = [path.strip() for path in kubeconfig.split(os.pathsep)]
    paths = [os.path.expanduser(path) for path in paths if path]

    current_context: Optional[str] = None
    contexts: Dict[Any, Any] = {}
    clusters: Dict[Any, Any] = {}
    users: Dict[Any, Any] = {}
    for path in paths:

        with open(path, encoding='utf-8') as f:
            config = yaml.safe_load(f.read()) or {}

        if current_context is None:
            current_context = config.get('current-context')
        for kind, items in [('context', contexts), ('cluster', clusters), ('user', users)]:
            for item in config.get(f'{kind}s', None) or []:
                items.setdefault(item['name'], item.get(kind) or {})

    if current_context is None:
        raise credentials.LoginError('Current context is not set in kubeconfigs.')
    try:
        context = contexts[current_context]
        cluster = clusters[context['cluster']]
        user = users[context['user']]
    except KeyError as e:
        raise credentials.LoginError(f'The kubeconfig context is incomplete: {e}') from e

    provider_token = user.get('auth-provider', {}).get('config', {}).get('access-token')
    return credentials.ConnectionInfo(
        server=cluster.get('server'),
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        token=user.get('token') or provider_token,
        default_namespace=context.get('namespace'),
    )
