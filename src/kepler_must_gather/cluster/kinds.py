"""API groups and versions of the kinds a gather run reads."""

CORE = "v1"
APPS = "apps/v1"
OLM = "operators.coreos.com/v1alpha1"
PACKAGES = "packages.operators.coreos.com/v1"
KEPLER = "kepler.system.sustainable.computing.io/v1alpha1"
ROUTE = "route.openshift.io/v1"
SCC = "security.openshift.io/v1"
