"""
Nginx Deny-List Generator Service

This module renders the currently jailed IPs into an nginx include file
(`deny <ip>;` lines) and reloads nginx so the bans are enforced at the edge.
"""

import os
import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Dict, Any
from django.conf import settings
from django.utils import timezone
from jinja2 import Environment, FileSystemLoader, select_autoescape
from ucpanel.security_guard.ip_utils import parse_ip
from ucpanel.security_guard.models import JailedIP

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = os.path.join(os.path.dirname(__file__), 'templates', 'nginx')


class NginxDenyListGenerator:
    """
    Service class for generating the nginx deny-list from active jails.
    """

    def __init__(self, output_path: Optional[str] = None):
        """
        Initialize the generator.

        Args:
            output_path: Custom path for the generated file. Defaults to settings.NGINX_DENYLIST_PATH
        """
        self.output_path = output_path or getattr(
            settings,
            'NGINX_DENYLIST_PATH',
            '/etc/nginx/conf.d/ucpanel-denylist.conf'
        )
        self.template_dir = getattr(settings, 'NGINX_TEMPLATE_DIR', DEFAULT_TEMPLATE_DIR)

        self.jinja_env = Environment(
            loader=FileSystemLoader(self.template_dir),
            autoescape=select_autoescape(['html', 'xml']),
            trim_blocks=True,
            lstrip_blocks=True
        )

    def get_active_jails(self) -> List[JailedIP]:
        """
        Fetch jails that are active and not yet expired.

        Returns:
            List of JailedIP objects ordered by address
        """
        jails = JailedIP.objects.filter(
            is_active=True,
            expires_at__gt=timezone.now()
        ).order_by('ip_address')

        logger.info(f"Found {jails.count()} active jails for nginx deny-list generation")
        return list(jails)

    def generate_config(self, jails: Optional[List[JailedIP]] = None) -> str:
        """
        Render the deny-list.

        Args:
            jails: Optional list of jails. If None, fetches from database.

        Returns:
            Generated configuration as string
        """
        if jails is None:
            jails = self.get_active_jails()

        # Only addresses reach the include file
        valid_jails = []
        for jail in jails:
            if parse_ip(jail.ip_address) is None:
                logger.warning(f"Skipping jail {jail.pk} with malformed address {str(jail.ip_address)[:100]!r}")
                continue
            valid_jails.append(jail)
        jails = valid_jails

        try:
            template = self.jinja_env.get_template('denylist.conf.j2')
            config_content = template.render(
                jails=jails,
                generated_at=timezone.now()
            )
            logger.info(f"Generated nginx deny-list with {len(jails)} entries")
            return config_content

        except Exception as e:
            logger.error(f"Error generating nginx deny-list: {e}", exc_info=True)
            raise

    def validate_config(self) -> tuple[bool, str]:
        """
        Validate nginx configuration syntax with `nginx -t`.

        Returns:
            Tuple of (is_valid, error_message)
        """
        test_command = getattr(settings, 'NGINX_TEST_COMMAND', 'nginx -t')

        try:
            result = subprocess.run(
                test_command.split(),
                capture_output=True,
                text=True,
                timeout=10
            )

            if result.returncode == 0:
                logger.info("Nginx configuration validation passed")
                return True, ""
            else:
                error_msg = result.stderr or result.stdout
                logger.error(f"Nginx configuration validation failed: {error_msg}")
                return False, error_msg

        except subprocess.TimeoutExpired:
            error_msg = "Nginx validation timed out"
            logger.error(error_msg)
            return False, error_msg
        except FileNotFoundError:
            error_msg = "Nginx command not found. Skipping validation."
            logger.warning(error_msg)
            # Development machines usually have no nginx binary
            return True, error_msg
        except Exception as e:
            error_msg = f"Error validating nginx config: {e}"
            logger.error(error_msg, exc_info=True)
            return False, error_msg

    def write_config(self, config_content: str, validate: bool = True) -> bool:
        """
        Write the deny-list atomically, keeping a backup of the previous file.

        When validation fails the previous file is restored.

        Returns:
            True if successful, False otherwise
        """
        try:
            output_path = Path(self.output_path)
            temp_path = output_path.with_suffix('.tmp')
            backup_path = output_path.with_suffix('.backup')

            output_path.parent.mkdir(parents=True, exist_ok=True)

            temp_path.write_text(config_content, encoding='utf-8')
            logger.info(f"Wrote temporary deny-list to {temp_path}")

            had_previous = output_path.exists()
            if had_previous:
                output_path.replace(backup_path)
                logger.info(f"Backed up existing deny-list to {backup_path}")

            temp_path.replace(output_path)

            # nginx -t checks the whole config, so the include must be in place first
            if validate:
                is_valid, error_msg = self.validate_config()
                if not is_valid:
                    logger.error(f"Generated deny-list is invalid: {error_msg}")
                    if had_previous:
                        backup_path.replace(output_path)
                    else:
                        output_path.unlink(missing_ok=True)
                    return False

            logger.info(f"Successfully wrote nginx deny-list to {output_path}")
            return True

        except Exception as e:
            logger.error(f"Error writing nginx deny-list: {e}", exc_info=True)
            return False

    def generate_and_write(self, validate: bool = True) -> Dict[str, Any]:
        """
        Generate the deny-list and write it to file.

        Returns:
            Dictionary with status information
        """
        try:
            jails = self.get_active_jails()
            config_content = self.generate_config(jails)
            success = self.write_config(config_content, validate=validate)

            return {
                'success': success,
                'jail_count': len(jails),
                'output_path': self.output_path,
                'validated': validate
            }

        except Exception as e:
            logger.error(f"Error in generate_and_write: {e}", exc_info=True)
            return {
                'success': False,
                'error': str(e),
                'jail_count': 0,
                'output_path': self.output_path
            }


class NginxReloader:
    """
    Service class for safely reloading nginx.
    """

    @staticmethod
    def reload() -> tuple[bool, str]:
        """
        Validate, then reload nginx.

        Returns:
            Tuple of (success, message)
        """
        reload_command = getattr(settings, 'NGINX_RELOAD_COMMAND', 'nginx -s reload')

        try:
            generator = NginxDenyListGenerator()
            is_valid, error_msg = generator.validate_config()

            if not is_valid:
                return False, f"Cannot reload: config validation failed - {error_msg}"

            result = subprocess.run(
                reload_command.split(),
                capture_output=True,
                text=True,
                timeout=10
            )

            if result.returncode == 0:
                logger.info("Nginx reloaded successfully")
                return True, "Nginx reloaded successfully"
            else:
                error_msg = result.stderr or result.stdout
                logger.error(f"Nginx reload failed: {error_msg}")
                return False, f"Reload failed: {error_msg}"

        except subprocess.TimeoutExpired:
            error_msg = "Nginx reload timed out"
            logger.error(error_msg)
            return False, error_msg
        except FileNotFoundError:
            error_msg = "Nginx command not found"
            logger.warning(error_msg)
            return False, error_msg
        except Exception as e:
            error_msg = f"Error reloading nginx: {e}"
            logger.error(error_msg, exc_info=True)
            return False, error_msg
